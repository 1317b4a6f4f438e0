"""Business services for the Innkeeper backend."""
