from stampede.main import main

main()
