from coverport.cli.main import cli

cli()
