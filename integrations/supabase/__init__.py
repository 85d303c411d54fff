from integrations.supabase.client import SupabaseAPIError, SupabaseClient, encode_in

__all__ = ["SupabaseAPIError", "SupabaseClient", "encode_in"]
