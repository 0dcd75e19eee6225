"""Allow ``python -m avrstack``."""

from avrstack.main import main

raise SystemExit(main())
