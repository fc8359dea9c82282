from cre_docs.services.classification.classification_service import ClassificationService

__all__ = ["ClassificationService"]
