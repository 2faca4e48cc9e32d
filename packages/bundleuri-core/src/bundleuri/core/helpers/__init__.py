"""Helper programs spawned by bundleuri transports."""
