"""UI-facing adapters: Qt signals and display text."""
