from smee_relay.relay.app import cli

cli()
