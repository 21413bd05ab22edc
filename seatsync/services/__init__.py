"""Reconciliation engine: upstream client, invites, reconciler, scheduler, live channel."""
