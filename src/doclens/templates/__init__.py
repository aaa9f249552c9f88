from doclens.templates.assign import assign_subsections
from doclens.templates.catalog import TemplateCatalog
from doclens.templates.matcher import confidences, match_template, score_template

__all__ = [
    "TemplateCatalog",
    "assign_subsections",
    "confidences",
    "match_template",
    "score_template",
]
