"""
Duplicate detection and lifecycle resolution engine for applications.

Submodules are imported directly (``intake_app.lifecycle.store`` and so on);
the models package depends on ``errors`` and ``identity`` so this package
keeps no eager imports.
"""
