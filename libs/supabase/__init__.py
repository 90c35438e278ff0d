"""Supabase access: FAQ vector search RPC and the query_logs table."""

from libs.supabase.client import SupabaseClient, create_supabase_client

__all__ = ["SupabaseClient", "create_supabase_client"]
