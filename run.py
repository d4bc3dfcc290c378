"""Entry point for the fill session terminal controller."""

from fillstation.main import main


if __name__ == "__main__":
    raise SystemExit(main())
