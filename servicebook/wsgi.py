from servicebook.main import create_app

app = create_app()
