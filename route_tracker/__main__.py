"""Module entry point: python -m route_tracker ..."""

from route_tracker.main import main

if __name__ == "__main__":
    raise SystemExit(main())
