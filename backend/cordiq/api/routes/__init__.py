"""API route handlers for Cordiq."""

from cordiq.api.routes import drafts as drafts
from cordiq.api.routes import metrics as metrics
from cordiq.api.routes import templates as templates
