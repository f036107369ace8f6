from recruitment.models.job import JobPosting
from recruitment.models.job_status_transition import JobStatusTransition
from recruitment.models.application import Application
from recruitment.models.permission import UserPermission

__all__ = ["JobPosting", "JobStatusTransition", "Application", "UserPermission"]
