# Core package - foundational components
#
# Modules:
# - config: Application settings
# - logging: Structured logging
