"""
Workflow Factory — wires the core workflows to their SQL and notification
adapters from the Flask app config.

Long-lived collaborators (permission engine, notification executor,
messaging gateway) are created once per app and kept in
``app.extensions``; repositories are cheap and built per call.

Usage:
    from app.services.workflow_factory import build_validate_stage

    result = build_validate_stage().execute(stage_id, actor_id)
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from flask import current_app

from app.core.workflows import AssignTask, GenerateStageTasks, ValidateStage
from app.integrations.messaging_gateway import MessagingGateway
from app.services.notification import (
    EmailNotifier,
    FanoutNotifier,
    InAppNotifier,
    MessagingNotifier,
)
from app.services.permission_service import build_permission_engine
from app.services.repositories import (
    SqlRoleResolver,
    SqlStageRepository,
    SqlStakeholderDirectory,
    SqlTaskRepository,
)

logger = logging.getLogger(__name__)

KNOWN_CHANNELS = ("in_app", "email", "sms", "whatsapp")


def _app(app=None):
    return app if app is not None else current_app._get_current_object()


def get_permission_engine(app=None):
    app = _app(app)
    engine = app.extensions.get("permission_engine")
    if engine is None:
        engine = build_permission_engine(ttl=app.config.get("PERMISSION_CACHE_TTL", 300))
        app.extensions["permission_engine"] = engine
    return engine


def get_messaging_gateway(app=None):
    app = _app(app)
    gateway = app.extensions.get("messaging_gateway")
    if gateway is None:
        gateway = MessagingGateway.from_config(app.config)
        app.extensions["messaging_gateway"] = gateway
    return gateway


def get_notification_executor(app=None):
    """Thread pool for fire-and-forget delivery, or None when disabled."""
    app = _app(app)
    if not app.config.get("NOTIFICATION_ASYNC"):
        return None
    executor = app.extensions.get("notification_executor")
    if executor is None:
        executor = ThreadPoolExecutor(
            max_workers=app.config.get("NOTIFICATION_WORKERS", 4),
            thread_name_prefix="notify",
        )
        app.extensions["notification_executor"] = executor
    return executor


def build_channels(app=None, *, bind_app=False):
    """Return ``{channel_name: notifier}`` for every supported channel.

    With ``bind_app`` each notifier opens its own app context, which is
    required when it runs off the request thread.
    """
    app = _app(app)
    owner = app if bind_app else None
    gateway = get_messaging_gateway(app)
    base_url = app.config.get("NOTIFICATION_BASE_URL", "")
    return {
        "in_app": InAppNotifier(owner),
        "email": EmailNotifier(owner, base_url=base_url),
        "sms": MessagingNotifier(gateway, owner, channel="sms"),
        "whatsapp": MessagingNotifier(gateway, owner, channel="whatsapp"),
    }


def configured_channel_names(app=None):
    app = _app(app)
    raw = app.config.get("NOTIFICATION_CHANNELS") or ""
    names = [n.strip().lower() for n in raw.split(",") if n.strip()]
    unknown = [n for n in names if n not in KNOWN_CHANNELS]
    if unknown:
        logger.warning("Ignoring unknown notification channels: %s", ", ".join(unknown))
    return [n for n in names if n in KNOWN_CHANNELS]


def build_notifier(app=None, *, bind_app=False):
    app = _app(app)
    channels = build_channels(app, bind_app=bind_app)
    return FanoutNotifier(channels[name] for name in configured_channel_names(app))


def build_validate_stage(app=None):
    app = _app(app)
    executor = get_notification_executor(app)
    return ValidateStage(
        SqlStageRepository(),
        SqlTaskRepository(),
        build_notifier(app, bind_app=executor is not None),
        get_permission_engine(app),
        SqlRoleResolver(),
        stakeholders=SqlStakeholderDirectory() if app.config.get("NOTIFY_STAKEHOLDERS", True) else None,
        system_actor_id=app.config.get("SYSTEM_ACTOR_ID"),
        executor=executor,
    )


def build_generate_stage_tasks(app=None):
    app = _app(app)
    return GenerateStageTasks(
        SqlStageRepository(),
        SqlTaskRepository(),
        get_permission_engine(app),
        SqlRoleResolver(),
        system_actor_id=app.config.get("SYSTEM_ACTOR_ID"),
    )


def build_assign_task(app=None):
    app = _app(app)
    executor = get_notification_executor(app)
    return AssignTask(
        SqlTaskRepository(),
        build_notifier(app, bind_app=executor is not None),
        permissions=get_permission_engine(app),
        roles=SqlRoleResolver(),
        executor=executor,
    )


def shutdown(app=None):
    """Release per-app resources (notification worker threads)."""
    app = _app(app)
    executor = app.extensions.pop("notification_executor", None)
    if executor is not None:
        executor.shutdown(wait=True)
