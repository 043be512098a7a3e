from chainlog.query.helpers import LogQuery

__all__ = ["LogQuery"]
