"""TestCraft — test case management platform.

Organizations own projects; projects own test cases, suites, plans and
the run history that drives each case's last-run status. Access is
gated by organization membership and a per-organization RBAC matrix.
"""

__version__ = "0.1.0"
