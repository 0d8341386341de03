def main(params):
    raise RuntimeError("something went wrong")
