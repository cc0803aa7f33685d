import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from .collaborators import BlobStore, DocumentStore, IdentityProvider, ShareSink
from .config import Settings
from .database import init_schema, make_engine, make_session_factory
from .documents import SqlDocumentStore
from .identity import SqlIdentityProvider
from .reports import ReportGenerator, ReportService
from .repositories import ChangeFeed, Repositories, build_repositories
from .session import Session
from .sharing import FileShareSink
from .storage import LocalBlobStore


logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Collaborators and shared state, constructed once at process start."""

    settings: Settings
    identity_provider: IdentityProvider
    store: DocumentStore
    blobs: BlobStore
    sink: ShareSink
    feed: ChangeFeed
    generator: ReportGenerator
    engine: Engine | None = None

    def new_session(self) -> Session:
        """Session over its own identity client; nothing it does reaches other sessions."""
        return Session(self.identity_provider.scoped(), self.store)

    async def open_session(self) -> Session:
        """Session that follows the process-level provider's identity notifications."""
        session = Session(self.identity_provider, self.store)
        await session.start()
        return session

    async def restore_session(self, token: str) -> Session:
        return await Session.restore(self.identity_provider.scoped(), self.store, token)

    def repositories_for(self, session: Session) -> Repositories:
        return build_repositories(session, self.store, self.feed, blobs=self.blobs)

    def reports_for(self, session: Session) -> ReportService:
        return ReportService(self.repositories_for(session), self.generator)


def build_context(settings: Settings) -> AppContext:
    engine = make_engine(settings.database_url)
    init_schema(engine)
    session_factory = make_session_factory(engine)
    sink = FileShareSink(settings.export_dir, settings.public_base_url)
    logger.info(f"School admin context ready (database: {engine.url.get_backend_name()})")
    return AppContext(
        settings=settings,
        identity_provider=SqlIdentityProvider(session_factory, settings),
        store=SqlDocumentStore(session_factory),
        blobs=LocalBlobStore(settings.upload_dir, settings.public_base_url),
        sink=sink,
        feed=ChangeFeed(),
        generator=ReportGenerator(sink),
        engine=engine,
    )
