"""Consultation reminder engine (scheduler, Celery poller, processor, delivery).

The scheduler is called synchronously by the consultation booking workflow.
Celery beat drives the poller, which claims due reminders and hands them one
at a time to the processor.
"""
