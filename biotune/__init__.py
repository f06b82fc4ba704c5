__version__ = "0.1"


def create_session_manager(config_path=None, repository=None, **overrides):
    """Build a SessionManager from the JSON config plus keyword overrides"""
    from .core.session.manager import SessionConfig, SessionManager
    from .utils.data_persistence import InMemorySnapshotRepository

    config = SessionConfig.from_file(config_path, **overrides)
    session_manager = SessionManager(
        config=config,
        repository=repository if repository is not None else InMemorySnapshotRepository(),
    )
    session_manager.load()
    return session_manager
