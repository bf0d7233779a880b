from zonecast.client.runner import main

main()
