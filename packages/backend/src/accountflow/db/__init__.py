"""Profile store persistence: ORM models, engine lifecycle, migrations."""
