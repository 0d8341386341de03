"""
owdev - Local Action Development Server

Version: 0.4.0

Serves the actions and sequences declared in an app manifest over HTTP,
using the same invocation contract as the production web gateway:

    GET|POST|... /api/v1/web/<package>/<action-or-sequence>[/<path>]

Web requests are turned into action parameters, authentication annotations
are enforced, the action's `main(params)` is loaded fresh on every call,
and the return value is normalized into an HTTP response. Requests to the
non-web prefix are always rejected with 401, as the platform does.

Usage:
    from owdev import create_app, load_manifest, verify_manifest

    manifest = load_manifest("manifest.yml")
    verify_manifest(manifest)
    app = create_app(manifest)

    # or from the command line
    #   owdev serve --manifest manifest.yml
"""

__version__ = "0.4.0"

from .models import Action, Manifest, Package, Sequence, WebExport
from .manifest import (
    ManifestError,
    ManifestIndex,
    Resolution,
    action_urls,
    load_manifest,
    verify_manifest,
)
from .activation import Activation, activation_environ, current_activation
from .loader import ActionLoadError, CodeLoader
from .invoker import invoke_action, normalize_response
from .sequence import invoke_sequence
from .main import create_app

__all__ = [
    "Action",
    "Activation",
    "ActionLoadError",
    "CodeLoader",
    "Manifest",
    "ManifestError",
    "ManifestIndex",
    "Package",
    "Resolution",
    "Sequence",
    "WebExport",
    "activation_environ",
    "action_urls",
    "create_app",
    "current_activation",
    "invoke_action",
    "invoke_sequence",
    "load_manifest",
    "normalize_response",
    "verify_manifest",
]
