"""Storage layer for Seaguard."""

from .base import ComplianceStore
from .supabase_client import SupabaseClient

__all__ = ["ComplianceStore", "SupabaseClient"]
