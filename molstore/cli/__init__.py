"""Admin command line for the molecule store.

Provides the ``molstore`` command with subcommands for saving molecules,
inspecting and verifying stored archives, and cleaning up the storage root.

All output uses Rich for formatted terminal display.
"""
