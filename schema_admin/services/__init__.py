from schema_admin.services.module_controller import ModuleController, Notice
from schema_admin.services.module_errors import (
    ConfigurationError,
    ModuleError,
    PermissionDeniedError,
    PersistenceError,
    RecordNotFoundError,
    UnknownModuleError,
)
from schema_admin.services.module_registry import ModuleRegistry, module_registry, verify_module_schema
from schema_admin.services.schema_builders import FormSchemaBuilder, TableSchemaBuilder

__all__ = [
	"ConfigurationError",
	"FormSchemaBuilder",
	"ModuleController",
	"ModuleError",
	"ModuleRegistry",
	"Notice",
	"PermissionDeniedError",
	"PersistenceError",
	"RecordNotFoundError",
	"TableSchemaBuilder",
	"UnknownModuleError",
	"module_registry",
	"verify_module_schema",
]
