# image_service/__init__.py
"""
Keep this file minimal so 'image_service' is always a proper package.

Do NOT import submodules here (e.g., don't import main).
Tests and runtime should import from 'image_service.main' directly:
    from image_service.main import create_app
And Uvicorn should use:
    uvicorn image_service.main:create_app --factory
"""
