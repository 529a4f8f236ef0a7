# Import every model so Base.metadata knows all tables before create_all
from lessonbook.models import user, lesson, invoice  # noqa: F401
