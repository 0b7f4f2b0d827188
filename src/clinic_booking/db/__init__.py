from clinic_booking.db.session import get_async_session, init_models, make_engine, make_session_factory

__all__ = ["get_async_session", "init_models", "make_engine", "make_session_factory"]
