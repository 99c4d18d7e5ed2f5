from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from attendme.core.config import Settings, get_settings
from attendme.core.logging_config import configure_logging
from attendme.db.bootstrap import init_db
from attendme.db.session import build_engine, build_session_factory
from attendme.services.commands import CommandContext
from attendme.services.connectivity import ConnectivityMonitor
from attendme.services.gateway import ActionGateway
from attendme.services.kv_store import JsonFileKeyValueStore, KeyValueStore
from attendme.services.notification_hub import notification_hub
from attendme.services.notifications import NotificationDispatcher, NotificationService
from attendme.services.offline_queue import OfflineActionQueue
from attendme.services.permissions import PermissionManager
from attendme.services.requests import RequestLifecycleManager
from attendme.services.visibility import VisibilityCoordinator
from attendme.services.watchlist import WatchlistCache


@dataclass
class AttendMeClient:
    settings: Settings
    engine: Engine | None
    session_factory: sessionmaker
    store: KeyValueStore
    permissions: PermissionManager
    requests: RequestLifecycleManager
    visibility: VisibilityCoordinator
    notifications: NotificationService
    queue: OfflineActionQueue
    connectivity: ConnectivityMonitor
    gateway: ActionGateway
    watchlist: WatchlistCache

    @property
    def context(self) -> CommandContext:
        return CommandContext(
            permissions=self.permissions,
            requests=self.requests,
            visibility=self.visibility,
            notifications=self.notifications,
        )


def create_client(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker | None = None,
    store: KeyValueStore | None = None,
    dispatcher: NotificationDispatcher | None = None,
    online: bool = True,
    create_schema: bool = False,
) -> AttendMeClient:
    settings = settings or get_settings()
    configure_logging(settings)

    engine: Engine | None = None
    if session_factory is None:
        engine = build_engine(settings)
        session_factory = build_session_factory(engine)
        if create_schema:
            init_db(engine)

    store = store if store is not None else JsonFileKeyValueStore(settings.local_store_path)
    dispatcher = dispatcher if dispatcher is not None else notification_hub

    visibility = VisibilityCoordinator(session_factory)
    permissions = PermissionManager(session_factory)
    requests = RequestLifecycleManager(
        session_factory,
        dispatcher=dispatcher,
        visibility=visibility,
        notifications_enabled=settings.notifications_enabled,
    )
    notifications = NotificationService(session_factory, visibility)
    context = CommandContext(
        permissions=permissions,
        requests=requests,
        visibility=visibility,
        notifications=notifications,
    )
    queue = OfflineActionQueue(
        store,
        context,
        storage_key=settings.queue_storage_key,
        last_sync_key=settings.queue_last_sync_key,
        max_attempts=settings.queue_max_attempts,
    )
    connectivity = ConnectivityMonitor(queue, online=online)
    gateway = ActionGateway(context, queue, connectivity)
    watchlist = WatchlistCache(session_factory, store, default_threshold=settings.watchlist_threshold)

    return AttendMeClient(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        store=store,
        permissions=permissions,
        requests=requests,
        visibility=visibility,
        notifications=notifications,
        queue=queue,
        connectivity=connectivity,
        gateway=gateway,
        watchlist=watchlist,
    )
