"""Entry point for ``python -m codemie_proxy``."""

from codemie_proxy.cli.main import main


if __name__ == "__main__":
    main()
