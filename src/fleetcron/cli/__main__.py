from fleetcron.cli.app import app

app()
