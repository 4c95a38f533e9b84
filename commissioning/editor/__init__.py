"""
Report editor library.

The client half of the commissioning report: it owns the device-local
inspection cache, merges it with the shared template, gates edit mode and
normalizes evidence photos. It talks to the Template Store in-process
(``stores.DatabaseTemplateStore``) or over HTTP
(``commissioning.integrations.template_gateway.HttpTemplateStore``).
"""
