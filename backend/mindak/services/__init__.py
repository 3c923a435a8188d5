"""
Mindak Reservations Backend — Services Layer
============================================

What:  Business logic between the routers (HTTP) and the database.
How:   Stateless classes with module-level singletons. Every method takes
       the request's AsyncSession first and only flushes; committing is the
       session dependency's job.

Service Inventory:
    - snapshot_builder:   pure answer validation + snapshot freezing
    - status_workflow:    allowed reservation status transitions
    - confirmation:       POD-/SRV- confirmation id generation
    - FormQuestionService questions, answer options, ordering, versioning
    - CatalogService:     service categories and services
    - ReservationService: submission, transitions, notes, admin reads
    - AnalyticsService:   events and dashboard aggregates
    - FileService:        answer-option image validation and storage
"""
