"""Service layer for zmemory.

Import services from their modules, e.g.
``from zmemory.services.ai_task import AITaskService``.
"""
