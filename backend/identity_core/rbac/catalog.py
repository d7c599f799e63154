"""
Static permission catalog.

Every tenant receives its own copy of each name below when it is created
(``identity_core.rbac.service.seed_catalog_permissions``). Existing tenants
pick up added names the next time the catalog is seeded for them, since
seeding only creates what is missing.
"""

ADMIN_PERMISSION = "admin"

PERMISSION_CATALOG: tuple[str, ...] = (
    # Tenant
    "tenant.view",
    "tenant.create",
    "tenant.update",
    # Roles and permissions
    "role.view",
    "role.create",
    "role.update",
    "rolepermission.view",
    "rolepermission.update",
    # Users
    "user.view",
    "user.create",
    "user.update",
    # Policies
    "policy.view",
    "policy.create",
    "policy.update",
    "policyAttributes.view",
    "policyAttributes.create",
    "policyAttributes.update",
    # Members
    "member.view",
    "member.create",
    "member.update",
    "member.delete",
    "member.approve",
    "member.reject",
    "member.disable",
    "member.enable",
    # Beneficiaries
    "beneficiary.create",
    "beneficiary.update",
    "beneficiary.delete",
    "beneficiary.approve",
    "beneficiary.reject",
    # Dependents
    "dependent.create",
    "dependent.update",
    "dependent.delete",
    "dependent.approve",
    "dependent.reject",
    # Claims
    "claim.view",
    "claim.create",
    "claim.updateStatus",
    "claim.delete",
    "claim.history.view",
    # Funeral events
    "funeralEvent.view",
    "funeralEvent.create",
    "funeralEvent.update",
    "funeralEvent.delete",
    "funeralEvent.updateStatus",
    # Resources
    "resource.view",
    "resource.create",
    "resource.update",
    "resource.delete",
    "resource.book",
    "resource.cancelBooking",
    # Assets
    "asset.view",
    "asset.create",
    "asset.update",
    "asset.delete",
    # Timesheets
    "timesheet.view",
    "timesheet.create",
    "timesheet.update",
    "timesheet.delete",
    # Subscriptions
    "subscription.view",
    "subscription.create",
    "subscription.update",
    "subscription.delete",
    # Profile
    "userProfile.view",
    "userProfile.update",
    # Onboarding
    "onboardingFieldConfiguration.view",
    "onboardingFieldConfiguration.create",
    "onboardingFieldConfiguration.update",
    "onboardingFieldConfiguration.delete",
    "onboardingFieldConfiguration.initialize",
    # Reporting
    "reporting.dashboard.view",
    "roleTemplate.apply",
    ADMIN_PERMISSION,
)

# Role that receives the whole catalog when a tenant is registered.
ADMIN_ROLE_NAME = "Admin"
