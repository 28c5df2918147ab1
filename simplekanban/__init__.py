# Kanban board over an issue tracker's bug table
#
# Server side:
#   schema.py   - Data model (Issue, User, Project, AccessLevel, enumerations)
#   config.py   - YAML configuration and enum-string parsing
#   store.py    - SQLite persistence for bugs, users, projects and relationships
#   service.py  - Status/assignee updates, ticket details, board payload
#   render.py   - Board page view model and HTML rendering
#
# Client side:
#   prefs.py    - Local key/value preferences (column visibility)
#   columns.py  - Column metadata and visibility rules
#   filters.py  - Client-side filter engine
#   board.py    - Board application state
#   dragdrop.py - Per-card drag-and-drop state machine
#   modals.py   - Assignee editor and ticket detail viewer
#   client.py   - HTTP client for the remote operations

__version__ = "1.0.4"
