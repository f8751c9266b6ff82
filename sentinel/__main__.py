from sentinel.transport.app import main

main()
