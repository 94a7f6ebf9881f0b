# Domain Layer
