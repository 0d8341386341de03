def main(params):
    return {
        "statusCode": 200,
        "headers": {"x-ignored": "yes"},
        "extra": "dropped",
        "error": {
            "statusCode": 418,
            "body": {"error": "I'm a teapot"},
        },
    }
