from liftdesk.main import LiftDeskClient

__all__ = ["LiftDeskClient"]
