"""Database models."""

from clinicflow.models.base import metadata
from clinicflow.models.medical_records import medical_records
from clinicflow.models.patients import patients
from clinicflow.models.tenants import tenant_members, tenants
from clinicflow.models.user_roles import user_roles
from clinicflow.models.users import user_profiles, users

__all__ = [
    "medical_records",
    "metadata",
    "patients",
    "tenant_members",
    "tenants",
    "user_profiles",
    "user_roles",
    "users",
]
