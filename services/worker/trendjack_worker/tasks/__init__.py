"""TrendJack Worker Tasks."""

# Import all tasks to register them with Celery
from trendjack_worker.tasks import embed  # noqa: F401
from trendjack_worker.tasks import jobs  # noqa: F401
from trendjack_worker.tasks import leads  # noqa: F401
from trendjack_worker.tasks import trends  # noqa: F401
