"""commissioning.integrations: outbound HTTP gateways.

All outbound HTTP calls go through a gateway in this package, never via bare
``requests`` calls in the editor, services or blueprints. Every gateway takes
an optional ``requests.Session`` so tests can intercept calls.

Current gateways:
  template_gateway.TemplateGateway: this application's REST API, plus the
                                     HTTP Template Store, verifiers and
                                     history sink built on it
  geocoding.reverse_geocode: Nominatim-compatible reverse geocoding
"""
