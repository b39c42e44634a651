from app.mlsync import create_app

app = create_app()
