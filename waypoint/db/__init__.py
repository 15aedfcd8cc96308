"""SQLAlchemy persistence: engine/session helpers, ORM tables and stores."""
