"""Configuration: engine settings and Supabase connection."""
