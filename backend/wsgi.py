from refurb import create_app

app = create_app()
