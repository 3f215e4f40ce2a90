"""Main entry point for the bookshare package."""

from bookshare.cli import app


def main():
    """Run the bookshare command-line interface."""
    app(prog_name="bookshare")


if __name__ == "__main__":
    main()
