from .reporter import ConsistencyIssue, HealthReporter

__all__ = ['HealthReporter', 'ConsistencyIssue']
