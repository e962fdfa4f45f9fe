"""Durable code store on the Django ORM. Add ``code_ledger.contrib.django`` to INSTALLED_APPS."""
