from m86asm.cli import main


raise SystemExit(main())
