from procguard.main import main

main()
