"""Constantes partagées pour éviter les valeurs magiques dans le code.

Codes HTTP utilisés par la couche API et bornes de validation des requêtes.
"""

# Codes de statut HTTP courants
HTTP_OK = 200
HTTP_CREATED = 201
HTTP_BAD_REQUEST = 400
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_UNPROCESSABLE_ENTITY = 422
HTTP_INTERNAL_SERVER_ERROR = 500
HTTP_SERVICE_UNAVAILABLE = 503

# Bornes de validation
MIN_MAX_RESULTS = 1
MAX_MAX_RESULTS = 100
MAX_QUERY_LEN = 4000
MAX_INGEST_CHARS = 2_000_000

# Marqueur émis quand aucun passage n'entre dans le contexte
NO_CONTEXT_MARKER = "[no relevant context found]"
OWN_SOURCE_LABEL = "own"
