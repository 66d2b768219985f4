"""Allow ``python -m termimg``."""

from .cli import main

raise SystemExit(main())
