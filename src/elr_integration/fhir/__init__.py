from .bundle import FHIRValidationError, Stu3BundleMapper

__all__ = ["FHIRValidationError", "Stu3BundleMapper"]
