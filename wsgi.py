"""
WSGI entry point and Flask-Migrate / Alembic entry point.

Usage:
    gunicorn wsgi:app
    flask db migrate -m "description"
    flask db upgrade

The reminder scheduler is started here, and only here, when
REMINDER_SCHEDULER_ENABLED is set; it is stopped at interpreter exit.
"""

import atexit

from app import create_app
from app.services.reminder_service import ReminderScheduler
from app.services.workflow_factory import shutdown

app = create_app()

if app.config.get("REMINDER_SCHEDULER_ENABLED"):
    scheduler = ReminderScheduler(app, interval=app.config.get("REMINDER_INTERVAL_SECONDS", 60))
    app.extensions["reminder_scheduler"] = scheduler
    scheduler.start()
    atexit.register(scheduler.stop)

atexit.register(shutdown, app)
