from modhost.cli.main import app

app()
