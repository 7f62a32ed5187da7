from .local_schedule_source import LocalScheduleSource
from .s3_schedule_source import S3ScheduleSource

__all__ = [
    "LocalScheduleSource",
    "S3ScheduleSource",
]
