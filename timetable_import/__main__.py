"""
Package entry point.

Allows running the application via:

    python -m timetable_import

This simply forwards execution to timetable_import.cli.main().
"""

from timetable_import.cli import main

if __name__ == "__main__":
    main()
