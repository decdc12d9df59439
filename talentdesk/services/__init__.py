"""
TalentDesk Backend: Services Layer
==================================

What:  Business rules between the routes (HTTP) and the database.
How:   Stateless service classes exposed as module singletons. Every method
       receives the request session and, where it matters, the acting user;
       none of them commit (except where a row must survive an error
       response, see template_service and import_service).

Service Inventory:
    Core
        - duplicate_service:    email/phone duplicate groups
        - merge_service:        fold source candidates into a target
        - search_service:       global filtered search + facets
        - analytics_service:    dashboard KPIs, funnels, series
    Resources
        - candidate_service, pipeline_service, stage_service
        - note_service, tag_service, attachment_service
        - template_service (templates + candidate emails)
        - import_service + cv_parser
        - saved_search_service, user_service
    Infrastructure
        - auth_service:   passwords and signed session tokens
        - audit_service:  append-only audit trail
        - email_service:  provider client with retry and circuit breaker
        - file_service:   upload validation and local storage
"""
