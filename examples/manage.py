#!/usr/bin/env python
"""Management entrypoint for the django-eregi example project.

Run from this directory with the repository installed (``pip install -e .``)::

    python manage.py migrate
    python manage.py bootstrap_conference --config conference.toml
    python manage.py runserver
"""

import os
import sys


def main() -> None:
    """Run administrative tasks against the example settings."""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "settings")
    from django.core.management import execute_from_command_line  # noqa: PLC0415

    execute_from_command_line(sys.argv)


if __name__ == "__main__":
    main()
