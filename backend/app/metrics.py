from __future__ import annotations

from prometheus_client import Counter

tryons_requested = Counter("nanofit_tryons_requested_total", "Total try-on generations requested")
tryons_completed = Counter("nanofit_tryons_completed_total", "Total try-on generations that produced an image")
tryons_failed = Counter("nanofit_tryons_failed_total", "Total try-on generations that exhausted every attempt")
generation_attempts = Counter(
    "nanofit_generation_attempts_total", "Image generation attempts", ["model", "prompt", "outcome"]
)
review_rejections = Counter("nanofit_review_rejections_total", "Generated images the review layer rejected")
refinements = Counter("nanofit_refinements_total", "Refinement requests", ["outcome"])
analyses = Counter("nanofit_item_analyses_total", "Item classifications", ["item_type"])
