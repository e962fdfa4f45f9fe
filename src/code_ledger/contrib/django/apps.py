from django.apps import AppConfig


class CodeLedgerConfig(AppConfig):
    name = "code_ledger.contrib.django"
    label = "code_ledger"
    verbose_name = "Code ledger"
    default_auto_field = "django.db.models.BigAutoField"
