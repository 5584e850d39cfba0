from telemetry_proxy.main import main

main()
