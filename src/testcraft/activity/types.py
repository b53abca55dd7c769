"""Audited object type names.

Learn: Centralizing the names written to activity_logs.object_type
prevents typos and makes it easy to discover everything that is audited.
"""

ORGANIZATION = "Organization"
ORGANIZATION_MEMBER = "OrganizationMember"
RBAC_PERMISSION = "RbacPermission"
PROJECT = "Project"
TEST_CASE = "TestCase"
TEST_RUN = "TestRun"
TEST_SUITE = "TestSuite"
TEST_SUITE_CASE = "TestSuiteCase"
TEST_PLAN = "TestPlan"
TEST_PLAN_CASE = "TestPlanCase"
COMMENT = "Comment"
USER = "User"
