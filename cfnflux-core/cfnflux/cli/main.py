def main():
    from .cfnflux import cfnflux

    cfnflux()


if __name__ == "__main__":
    main()
