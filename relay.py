from persona_relay.app import cli


if __name__ == "__main__":
    cli()
