"""Sync engine: window resolution, snapshot store, scheduler, error mapping."""
