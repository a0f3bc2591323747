"""HTTP routers; included explicitly by image_service.main.create_app."""
